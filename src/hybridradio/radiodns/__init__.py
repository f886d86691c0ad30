"""RadioDNS hybrid radio lookups: DNS discovery and SPI metadata."""
