"""Store-and-forward synchronisation between an Org directory and a
MobileOrg staging area."""

__version__ = "0.4.0"
