"""tutorbook: tutoring slot reservation and booking core."""
