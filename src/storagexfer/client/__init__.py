"""Client module - HTTP client, session store and transfer engine."""
