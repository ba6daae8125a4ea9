#!/usr/bin/env python3
"""Convenience runner for the territory ride tracker.

Usage:
    python run.py replay ride.gpx
"""
from territory_track.main import main

if __name__ == "__main__":
    raise SystemExit(main())
