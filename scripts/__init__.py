"""
Package marker for scripts to allow running as a module:

    python3 -m scripts.run_simulation --test-case ssh_bump

This avoids import issues for 'pyocean'.
"""
