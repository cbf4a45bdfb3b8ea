"""
SCS Ops Agent

Drives managed cache (SCS) instances from their observed state to a desired
state by issuing control-plane mutations and polling status until convergence.
"""

__version__ = "0.1.0"
__author__ = "ScsOpsAgent"
