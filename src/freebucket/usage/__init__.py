"""Usage accounting, quota gate and usage report."""
