# pipeline/ — operational scripts for Crosswalk Sentinel.
#
#   01_replay_feed  → replay a recorded SDSM feed and write the per-cycle alert log
