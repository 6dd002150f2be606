"""Prompt builders for SoulScribe agents"""
