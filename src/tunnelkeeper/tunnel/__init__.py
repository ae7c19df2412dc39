"""Tunnel sessions: profiles, commands, key files, output parsing and orchestration."""
