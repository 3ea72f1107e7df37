"""HTTP API for RFPRAG."""
