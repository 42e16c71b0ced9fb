"""Traffic-aware routing, incident rerouting and drive simulation."""
