"""
Manifest crawler app.

Discovers package manifest files across an organization's repositories on
GitHub and returns their raw contents, staying under the API's rate limits.
"""
