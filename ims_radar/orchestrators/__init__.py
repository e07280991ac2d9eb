"""Cycle orchestration.

- radar_cycle: ``RadarOrchestrator`` — state machine and change notifier
- phases: acquisition and transformation phase runners
- scheduler: ``CycleScheduler`` — cooperative fixed-interval loop
"""
