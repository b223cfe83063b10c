"""RepairHub coordination core: quote competition, appointment scheduling and client-side quote tracking"""

__version__ = "0.1.0"
