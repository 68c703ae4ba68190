"""Story scheduler: backlog store, dependency resolution, and the agent loop."""
