"""Store maintenance tasks."""
