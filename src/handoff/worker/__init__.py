"""Worker process: runs the cloud workflows and speaks the event protocol."""
