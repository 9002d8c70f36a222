"""Task execution: the dispatch engine, its state pools and process files.

The queue only knows about the `Task` interface; task families live in
`github_search_harvester.tasks`.
"""
