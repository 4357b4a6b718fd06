"""send2tg command line tools."""
