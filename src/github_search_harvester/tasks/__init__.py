"""Search task families.

Each family has a spec model (`tasks.spec`), a `Task` that runs one spec and a
`Command` that seeds new processes:

- focus project candidate search: repositories, narrowed on the creation date
- focus organization details: repositories of an organization, narrowed on page size
- user count search: user count per location, never narrowed
- user and contribution search: users, narrowed on sign-up and contribution dates
"""
