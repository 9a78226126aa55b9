"""Terminal front-end: typer commands and Rich rendering."""
