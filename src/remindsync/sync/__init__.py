"""
WebDAV sync subsystem.

Components:
- webdav.py: thin httpx client (PROPFIND/HEAD/GET/PUT/DELETE)
- remote_lock.py: advisory lock file with expiry
- merger.py: row-level last-writer-wins merge of snapshots
- change_tracker.py: dirty flag with a change sequence
- coordinator.py: debounce/throttle/interval policy and single-flight attempts
"""
