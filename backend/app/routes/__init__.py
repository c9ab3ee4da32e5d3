"""HTTP routers for the School Directory backend."""
