"""Utility scripts for operating the records tables.

Scripts include:
- ``records_admin.py``: list, get, create, update and delete records of any
  entity; cascade-delete children; select the active task.
"""
