"""Encrypted personal contacts store.

Persistence, querying and observable list state for Person records kept in a
single passphrase-encrypted local file.
"""

__version__ = "0.1.0"
