"""Test package for the webmail service.

What:
  Marks ``tests`` as a package so suites can import the shared fakes as
  ``tests.fakes``.

Invariants & Safety:
  - The file must remain side-effect free so that importing ``tests`` never
    mutates environment state or test fixtures.
"""
