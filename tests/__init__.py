"""
Test suite for sourcetrace

Unit tests for the provenance model, storages, VCS drivers, the working tree
cache, both resolvers and the resolution pipeline. A fake VCS driver in
conftest.py stands in for real repositories.
"""
