"""Okta security-posture collector.

Connects to an Okta organization, streams users, applications and
authentication policies with pagination and rate limiting, and reduces
them to a small record of percentage and policy-range metrics for
periodic compliance reporting.
"""
