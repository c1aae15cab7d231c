"""Apply subpackage: from validated patch operations to files on disk.

- matching: exact and whitespace-normalized search block location
- engine: PatchApplier (create / replace / delete, rollback snapshots)
- policy: SafetyGuard (write scope, read-only paths, placeholders, delete intent)
"""
