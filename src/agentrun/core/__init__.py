"""Data models and errors shared by every layer of agentrun."""
