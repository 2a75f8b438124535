"""Room directory: the list of chat rooms that may be opened."""
