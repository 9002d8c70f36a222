"""GitHub Search Harvester.

Enumerates large result sets of GitHub's GraphQL search API:
- search tasks that continue themselves page by page
- and narrow themselves down to smaller date ranges when they keep failing
- run by a rate-limit aware task queue with resumable on-disk processes
"""

__version__ = "0.1.0"

from github_search_harvester.config import HarvesterSettings, LocalSettings, QueueSettings

__all__ = ["__version__", "HarvesterSettings", "LocalSettings", "QueueSettings"]
