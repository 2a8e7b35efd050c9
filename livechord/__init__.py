"""livechord: real-time chord detection aligned to a song's bar grid."""

__version__ = "0.1.0"
