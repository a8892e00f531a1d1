"""Rentema API - inquiry qualification and scheduling backend."""
