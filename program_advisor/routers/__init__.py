"""HTTP routers for the program advisor backend."""
