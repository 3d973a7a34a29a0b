"""Command-line interface for Train Prep"""
