"""Request-forwarding core of the relay.

  - target.py   — target host / path / forward mode resolution
  - headers.py  — header policy (ODoH templates, Proxy-Status, diagnostic rewrite)
  - builders.py — outgoing request and final response builders
  - engine.py   — dispatcher and the catch-all relay route
"""
