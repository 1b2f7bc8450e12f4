"""Correlation of push-payment requests with their asynchronous callbacks."""
