"""mpm - command-line manager for musicplug source plugins."""
