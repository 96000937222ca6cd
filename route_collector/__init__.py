"""Transit route collector: browser-driven discovery of city bus and tram routes."""
