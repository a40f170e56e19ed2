"""
SKDocs — end-to-end encrypted documents with owner-mediated collaboration.

Every document gets its own key. Every collaborator gets that key
wrapped just for them. Every shared edit is a branch the owner decides on.

A smilinTux Open Source Project.
"""

import os

__version__ = "0.1.0"
__author__ = "smilinTux"

DOCS_HOME = os.environ.get("SKDOCS_HOME", "~/.skdocs")
