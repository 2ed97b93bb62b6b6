"""Shared plumbing: process runner, adapters, value objects, config."""
