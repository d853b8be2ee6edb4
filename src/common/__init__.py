"""
Ambient concerns shared by the export pipeline: configuration, logging
and error handling.
"""
