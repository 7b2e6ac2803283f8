"""paygate: HTTP gateway routing payments to Lightning/on-chain and Liquid nodes."""

__version__ = "2.0.0"
