"""dataset_forge: synthetic filesystem datasets for backup and sync testing."""

__version__ = "0.1.0"
