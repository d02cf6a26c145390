"""Physics engine adapter and body spawner."""
