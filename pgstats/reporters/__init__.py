"""Report renderers: live tables or a replayable SQL script."""
