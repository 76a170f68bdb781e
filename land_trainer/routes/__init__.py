from land_trainer.routes import parcels, personas, training_sessions, users

__all__ = ['parcels', 'personas', 'training_sessions', 'users']
