"""HTTP layer of the search service; see api.app.create_app."""
