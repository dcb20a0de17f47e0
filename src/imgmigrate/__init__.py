"""
Imgmigrate: Article Image Migration

A utility for archiving an article corpus by downloading every remotely
hosted image it references into a flat local directory, then rewriting the
articles so the static site no longer depends on third-party hosting.
"""

__version__ = "1.0"
__author__ = "Imgmigrate Project"
__description__ = "Article Image Migration"
