"""Server-rendered bookmark UI.

This UI is intentionally lightweight:
- served by the FastAPI app
- simple HTML forms + redirects
- one small script that listens on /events and swaps the live fragment

State lives in the per-browser-session ViewController; the theme lives in a cookie.
"""
