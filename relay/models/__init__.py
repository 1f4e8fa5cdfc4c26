"""ODoH relay models package.

  - errors.py    — RelayError taxonomy (WrongMethod, MissingField) and the
                   terminal error response builder
  - responses.py — response objects carrying the upstream status text
"""
