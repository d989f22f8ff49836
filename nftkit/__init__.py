"""Build and parse nftables netlink messages for tables, rules and sets, in memory."""

__version__ = "0.1.0"