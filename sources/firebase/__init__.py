from .driver import FirebaseClients, FirestoreDriver, driver, open_clients, test_connection

__all__ = ["FirebaseClients", "FirestoreDriver", "driver", "open_clients", "test_connection"]
