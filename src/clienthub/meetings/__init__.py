"""Meetings -- meeting types, meeting records and AI transcript summaries.

System meeting types (C1-C4, FUP) are seeded per consultant on first use and
cannot be changed; consultants may add up to ten custom types. Summaries are
produced by MeetingSummarizer through the LLM service and consume one credit.
"""
