"""hermes-sync: GitLab fleet synchronization and merge-request automation."""

__version__ = "0.1.0"
