"""Docker image archive extraction, layer search and tag resolution."""
