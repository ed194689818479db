"""Command-line tools built on the proto2wire generator."""
