#!/usr/bin/env python3
"""
Face Registry - Main Entry Point

Run this file to start the interactive face registry.
"""

import sys

from face_registry.main import main

if __name__ == '__main__':
    sys.exit(main())
