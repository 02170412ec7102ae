"""Blackrock multi-device recording pipeline.

Corrects clock drift between independently clocked Hubs/NSPs, reconciles
event codes across recording blocks and device instances, and packages the
result into an in-memory NWB file.

Packages:
- config: TOML settings with environment overrides
- sync: NSx reading and sample-rate drift correction
- events: NEV reading and event reconciliation
- nwb: NWB packaging
- pipeline: session orchestration
"""

__version__ = "0.1.0"
