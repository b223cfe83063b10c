"""Quotes domain - Repair requests, competing bids and competitor-blind visibility"""
