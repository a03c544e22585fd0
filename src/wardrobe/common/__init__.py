"""
Shared configuration, logging and timing utilities
"""
