"""HTTP layer: blueprints, request decorators, and error handlers."""
