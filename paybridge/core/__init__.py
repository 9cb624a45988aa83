"""Core module for paybridge."""
