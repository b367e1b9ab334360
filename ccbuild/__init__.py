"""
ccbuild

Production bundle builds with Closure Compiler: assembles inputs and flags
per entry module, rate-limits concurrent compiler invocations through a
bounded task queue, and post-processes the compiled output.
"""

__version__ = "1.0.0"
