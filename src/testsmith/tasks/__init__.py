"""
Task subsystem.

Components:
- task_models.py: data structures (Task, Repo, TaskStatus)
- task_store.py: SQLite-backed storage + query/update helpers
- task_scheduler.py: polling scheduler that claims one queued task per tick
- pipeline.py: workspace pipeline (copy, branch, generate, commit, push, PR)
- errors.py: one exception per pipeline failure kind
- repo_names.py: repository url parsing
"""
