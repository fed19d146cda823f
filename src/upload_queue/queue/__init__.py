"""
Upload queue subsystem.

Components:
- models.py: data structures (UploadTask, UploadStatus, UploadEvent)
- store.py: SQLite-backed storage + query/update helpers
- manager.py: single-flight upload state machine (ping/submit/touch/recover)
"""
