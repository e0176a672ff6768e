"""
PDF Server - HTTP service that renders web pages and HTML to PDF.

Pages are rendered by a pool of reusable Playwright/Chromium pages using
named layout presets. Header and footer templates may reference remote
images, which are inlined as data URIs before rendering.
"""

__version__ = "0.1.0"
