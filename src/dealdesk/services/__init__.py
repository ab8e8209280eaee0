"""External collaborators behind narrow interfaces (text generation)."""
