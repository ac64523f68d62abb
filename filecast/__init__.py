"""
filecast - discover file-receiving servers on the LAN and send files to them.
"""

__version__ = "1.0.0"
