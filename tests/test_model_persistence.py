"""
test_model_persistence.py
~~~~~~~~~~~~~~~~~~~~~~~~~~

Unit tests for SQLite-based model persistence.
"""

import json
import os
import sqlite3

import numpy as np
import pytest

from feedforward import Network
from feedforward.model_persistence import (
    save_network,
    load_network,
    list_saved_networks,
    delete_network,
    get_network_metadata,
    delete_old_networks,
    ModelDatabase,
    NetworkEncoder,
)

INPUTS = [[1, 1, 0], [0, 1, 1], [1, 0, 1]]
TARGETS = [[1, 0], [0, 1], [0, 1]]


@pytest.fixture
def temp_db_dir(tmp_path):
    """Create a temporary directory for database storage."""
    db_dir = tmp_path / "test_models"
    db_dir.mkdir()
    return str(db_dir)


@pytest.fixture
def simple_network():
    """Create a simple 3-layer network for testing."""
    return Network.create([3, 4, 2], ['tanh', 'softmax'], batch_size=3)


@pytest.fixture
def trained_network(simple_network):
    """Create a simple network with some training applied."""
    simple_network.learn_rate = 0.1
    simple_network.momentum = 0.5
    for _ in range(20):
        simple_network.forward(INPUTS)
        simple_network.backward(TARGETS)
    return simple_network


def age_network(db_path, network_id, modifier):
    """Move a network's created_at back in time, e.g. ``'-3 days'``."""
    conn = sqlite3.connect(db_path)
    cursor = conn.cursor()
    cursor.execute('''
        UPDATE networks
        SET created_at = datetime('now', ?)
        WHERE network_id = ?
    ''', (modifier, network_id))
    conn.commit()
    conn.close()


@pytest.mark.unit
class TestNetworkEncoder:
    """Test JSON encoding of numpy values."""

    def test_encodes_arrays_and_scalars(self):
        encoded = json.dumps(
            {'a': np.array([[1.0, 2.0]]), 'b': np.float64(0.5), 'c': np.int64(3)},
            cls=NetworkEncoder
        )
        assert json.loads(encoded) == {'a': [[1.0, 2.0]], 'b': 0.5, 'c': 3}

    def test_rejects_unknown_objects(self):
        with pytest.raises(TypeError):
            json.dumps({'a': object()}, cls=NetworkEncoder)


@pytest.mark.unit
class TestModelPersistence:
    """Test basic model persistence operations."""

    def test_save_network_creates_database(self, simple_network, temp_db_dir):
        """Test that saving a network creates the database file."""
        success = save_network(
            simple_network,
            "test_network_1",
            model_dir=temp_db_dir,
            trained=False
        )

        assert success is True
        assert os.path.exists(f"{temp_db_dir}/networks.db")

    def test_save_network_with_metadata(self, trained_network, temp_db_dir):
        """Test that network metadata is saved correctly."""
        network_id = "trained_network_1"
        loss = 0.42

        success = save_network(
            trained_network,
            network_id,
            model_dir=temp_db_dir,
            trained=True,
            loss=loss
        )

        assert success is True

        metadata = get_network_metadata(network_id, temp_db_dir)
        assert metadata is not None
        assert metadata['network_id'] == network_id
        assert metadata['trained'] is True
        assert metadata['loss'] == loss
        assert metadata['architecture'] == [3, 4, 2]
        assert metadata['activations'] == ['tanh', 'softmax']

    def test_stored_document_is_json(self, simple_network, temp_db_dir):
        """Test that the network is stored as a readable JSON document."""
        save_network(simple_network, "json_test", model_dir=temp_db_dir)

        conn = sqlite3.connect(os.path.join(temp_db_dir, "networks.db"))
        row = conn.execute(
            'SELECT network_data FROM networks WHERE network_id = ?',
            ("json_test",)
        ).fetchone()
        conn.close()

        assert json.loads(row[0]) == simple_network.export_state()

    def test_load_network_returns_network(self, simple_network, temp_db_dir):
        """Test that loading a network returns a valid Network object."""
        save_network(simple_network, "test_network_2", model_dir=temp_db_dir)
        loaded_network = load_network("test_network_2", temp_db_dir)

        assert loaded_network is not None
        assert isinstance(loaded_network, Network)
        assert loaded_network.node_counts == simple_network.node_counts
        assert loaded_network.activation_names == simple_network.activation_names

    def test_load_uses_runtime_parameters(self, simple_network, temp_db_dir):
        """Test that batch size and trainability are chosen at load time."""
        save_network(simple_network, "runtime_test", model_dir=temp_db_dir)

        loaded = load_network(
            "runtime_test",
            temp_db_dir,
            batch_size=7,
            trainable=True
        )
        assert loaded.batch_size == 7
        assert loaded.is_trainable is True

    def test_load_nonexistent_network(self, temp_db_dir):
        """Test that loading a non-existent network returns None."""
        assert load_network("nonexistent", temp_db_dir) is None

    def test_load_preserves_weights(self, trained_network, temp_db_dir):
        """Test that saved weights are preserved after loading."""
        save_network(trained_network, "test_network_3", model_dir=temp_db_dir)
        loaded_network = load_network("test_network_3", temp_db_dir, batch_size=3)

        for original, loaded in zip(trained_network.layers, loaded_network.layers):
            assert np.array_equal(original.weights, loaded.weights)
            assert np.array_equal(original.bias_weights, loaded.bias_weights)

        trained_network.forward(INPUTS)
        loaded_network.forward(INPUTS)
        assert loaded_network.get_output() == trained_network.get_output()

    def test_load_corrupt_document(self, simple_network, temp_db_dir):
        """Test that a stored document with a bad layer count loads as None."""
        db = ModelDatabase(db_path=os.path.join(temp_db_dir, "networks.db"))
        db.save_network_to_db(simple_network, "corrupt", trained=False)

        state = simple_network.export_state()
        state['layers'].pop()
        conn = sqlite3.connect(db.db_path)
        conn.execute(
            'UPDATE networks SET network_data = ? WHERE network_id = ?',
            (json.dumps(state), "corrupt")
        )
        conn.commit()
        conn.close()

        assert load_network("corrupt", temp_db_dir) is None

    def test_load_non_numeric_node_count(self, simple_network, temp_db_dir):
        """Test that a stored document with an unparseable node count loads as None."""
        db = ModelDatabase(db_path=os.path.join(temp_db_dir, "networks.db"))
        db.save_network_to_db(simple_network, "garbled", trained=False)

        state = simple_network.export_state()
        state['node_counts'] = ['x', 2]
        conn = sqlite3.connect(db.db_path)
        conn.execute(
            'UPDATE networks SET network_data = ? WHERE network_id = ?',
            (json.dumps(state), "garbled")
        )
        conn.commit()
        conn.close()

        assert load_network("garbled", temp_db_dir) is None

    def test_invalid_network_id(self, simple_network, temp_db_dir):
        assert save_network(simple_network, "", model_dir=temp_db_dir) is False
        assert load_network("", temp_db_dir) is None
        assert delete_network("", temp_db_dir) is False
        assert get_network_metadata("", temp_db_dir) is None

    def test_invalid_loss(self, simple_network, temp_db_dir):
        """Test that a negative or non-finite loss is refused."""
        assert save_network(simple_network, "bad", model_dir=temp_db_dir, loss=-1.0) is False
        assert save_network(
            simple_network, "bad", model_dir=temp_db_dir, loss=float('nan')
        ) is False
        assert get_network_metadata("bad", temp_db_dir) is None

    def test_save_non_network(self, temp_db_dir):
        assert save_network(object(), "not_a_network", model_dir=temp_db_dir) is False

    def test_list_saved_networks_empty(self, temp_db_dir):
        """Test listing networks when database is empty."""
        assert list_saved_networks(temp_db_dir) == []

    def test_list_saved_networks(self, simple_network, temp_db_dir):
        """Test that listing networks returns correct metadata."""
        save_network(simple_network, "net1", model_dir=temp_db_dir, trained=True, loss=0.9)
        save_network(simple_network, "net2", model_dir=temp_db_dir, trained=False)

        networks = list_saved_networks(temp_db_dir)

        assert len(networks) == 2
        assert any(net['network_id'] == "net1" for net in networks)
        assert any(net['network_id'] == "net2" for net in networks)

    def test_list_saved_networks_includes_metadata(self, simple_network, temp_db_dir):
        """Test that listed networks include all expected metadata fields."""
        save_network(
            simple_network,
            "metadata_test",
            model_dir=temp_db_dir,
            trained=True,
            loss=0.75
        )

        network = list_saved_networks(temp_db_dir)[0]

        assert network['network_id'] == "metadata_test"
        assert network['architecture'] == [3, 4, 2]
        assert network['trained'] is True
        assert network['loss'] == 0.75
        assert 'created_at' in network
        assert 'updated_at' in network
        assert network['weights_shape'] == [[3, 4], [4, 2]]
        assert network['biases_shape'] == [[4], [2]]

    def test_delete_network_success(self, simple_network, temp_db_dir):
        """Test successful network deletion."""
        save_network(simple_network, "delete_test", model_dir=temp_db_dir)
        assert load_network("delete_test", temp_db_dir) is not None

        assert delete_network("delete_test", temp_db_dir) is True
        assert load_network("delete_test", temp_db_dir) is None

    def test_delete_nonexistent_network(self, temp_db_dir):
        """Test that deleting a non-existent network returns False."""
        ModelDatabase(db_path=f'{temp_db_dir}/networks.db')
        assert delete_network("nonexistent", temp_db_dir) is False

    def test_update_network(self, simple_network, temp_db_dir):
        """Test that saving a network with the same ID updates it."""
        network_id = "update_test"
        save_network(simple_network, network_id, model_dir=temp_db_dir, trained=False)

        metadata1 = get_network_metadata(network_id, temp_db_dir)
        assert metadata1['trained'] is False

        save_network(
            simple_network,
            network_id,
            model_dir=temp_db_dir,
            trained=True,
            loss=0.12
        )

        metadata2 = get_network_metadata(network_id, temp_db_dir)
        assert metadata2['trained'] is True
        assert metadata2['loss'] == 0.12
        assert len(list_saved_networks(temp_db_dir)) == 1

    def test_update_keeps_created_at(self, simple_network, temp_db_dir):
        """Test that overwriting a network doesn't reset its age."""
        save_network(simple_network, "aged", model_dir=temp_db_dir)
        age_network(os.path.join(temp_db_dir, "networks.db"), "aged", '-3 days')
        created_at = get_network_metadata("aged", temp_db_dir)['created_at']

        save_network(simple_network, "aged", model_dir=temp_db_dir, loss=0.5)

        assert get_network_metadata("aged", temp_db_dir)['created_at'] == created_at


@pytest.mark.integration
class TestPersistenceIntegration:
    """Integration tests for model persistence."""

    def test_save_load_train_cycle(self, simple_network, temp_db_dir):
        """Test complete cycle: save, load, train, save again."""
        network_id = "cycle_test"
        save_network(simple_network, network_id, model_dir=temp_db_dir, trained=False)

        loaded_network = load_network(network_id, temp_db_dir, batch_size=3, trainable=True)
        loaded_network.learn_rate = 0.1
        for _ in range(10):
            loaded_network.forward(INPUTS)
            loaded_network.backward(TARGETS)
        loaded_network.forward(INPUTS)
        loss = loaded_network.get_loss(TARGETS)

        save_network(
            loaded_network,
            network_id,
            model_dir=temp_db_dir,
            trained=True,
            loss=loss
        )

        final_network = load_network(network_id, temp_db_dir, batch_size=3)
        metadata = get_network_metadata(network_id, temp_db_dir)

        assert final_network is not None
        assert metadata['trained'] is True
        assert metadata['loss'] == pytest.approx(loss)
        final_network.forward(INPUTS)
        assert final_network.get_output() == loaded_network.get_output()

    def test_multiple_networks_coexist(self, temp_db_dir):
        """Test that multiple networks can coexist in the database."""
        networks_to_create = [
            ([784, 30, 10], ['sigmoid', 'softmax'], "mnist_network"),
            ([3, 4, 2], ['tanh', 'softmax'], "simple_network"),
            ([10, 20, 20, 10], ['tanh', 'sigmoid', 'split_softmax'], "deep_network")
        ]

        for architecture, activations, network_id in networks_to_create:
            net = Network.create(architecture, activations, split_factor=2)
            save_network(net, network_id, model_dir=temp_db_dir)

        assert len(list_saved_networks(temp_db_dir)) == len(networks_to_create)

        for architecture, activations, network_id in networks_to_create:
            loaded = load_network(network_id, temp_db_dir)
            assert loaded is not None
            assert loaded.node_counts == architecture
            assert loaded.activation_names == activations

    def test_repeated_operations(self, simple_network, temp_db_dir):
        """Test that the database handles many sequential transactions."""
        network_ids = [f"sequential_{i}" for i in range(5)]

        for network_id in network_ids:
            save_network(simple_network, network_id, model_dir=temp_db_dir)

        loaded_networks = [load_network(nid, temp_db_dir) for nid in network_ids]
        assert all(net is not None for net in loaded_networks)

        for network_id in network_ids:
            assert delete_network(network_id, temp_db_dir) is True

        assert list_saved_networks(temp_db_dir) == []


class TestDeleteOldNetworks:
    """Tests for removing old networks."""

    def test_delete_old_networks_basic(self, simple_network, temp_db_dir):
        network_id = "test_network"
        save_network(simple_network, network_id, model_dir=temp_db_dir)
        age_network(os.path.join(temp_db_dir, "networks.db"), network_id, '-3 days')

        deleted_count = delete_old_networks(days=2, model_dir=temp_db_dir)

        assert deleted_count == 1
        assert load_network(network_id, temp_db_dir) is None

    def test_delete_old_networks_preserves_recent(self, simple_network, temp_db_dir):
        save_network(simple_network, "recent_network", model_dir=temp_db_dir)

        assert delete_old_networks(days=2, model_dir=temp_db_dir) == 0
        assert load_network("recent_network", temp_db_dir) is not None

    def test_delete_old_networks_mixed_ages(self, simple_network, temp_db_dir):
        old_ids = ["old_1", "old_2"]
        recent_ids = ["recent_1", "recent_2"]
        db_path = os.path.join(temp_db_dir, "networks.db")

        for network_id in old_ids + recent_ids:
            save_network(simple_network, network_id, model_dir=temp_db_dir)
        for network_id in old_ids:
            age_network(db_path, network_id, '-3 days')

        assert delete_old_networks(days=2, model_dir=temp_db_dir) == len(old_ids)
        for network_id in old_ids:
            assert load_network(network_id, temp_db_dir) is None
        for network_id in recent_ids:
            assert load_network(network_id, temp_db_dir) is not None

    def test_delete_old_networks_custom_days(self, simple_network, temp_db_dir):
        network_id = "test_network"
        save_network(simple_network, network_id, model_dir=temp_db_dir)
        age_network(os.path.join(temp_db_dir, "networks.db"), network_id, '-5 days')

        assert delete_old_networks(days=7, model_dir=temp_db_dir) == 0
        assert load_network(network_id, temp_db_dir) is not None

        assert delete_old_networks(days=3, model_dir=temp_db_dir) == 1
        assert load_network(network_id, temp_db_dir) is None

    def test_delete_old_networks_empty_db(self, temp_db_dir):
        assert delete_old_networks(days=2, model_dir=temp_db_dir) == 0

    def test_delete_old_networks_negative_days(self, temp_db_dir):
        with pytest.raises(ValueError) as exc_info:
            delete_old_networks(days=-1, model_dir=temp_db_dir)
        assert "non-negative" in str(exc_info.value)

    def test_delete_old_networks_zero_days(self, simple_network, temp_db_dir):
        network_id = "test_network"
        save_network(simple_network, network_id, model_dir=temp_db_dir)
        age_network(os.path.join(temp_db_dir, "networks.db"), network_id, '-1 hour')

        assert delete_old_networks(days=0, model_dir=temp_db_dir) == 1
        assert load_network(network_id, temp_db_dir) is None

    def test_model_database_delete_old_networks_method(self, temp_db_dir):
        """Test ModelDatabase.delete_old_networks_from_db directly."""
        db = ModelDatabase(db_path=os.path.join(temp_db_dir, "networks.db"))
        net = Network.create([3, 4, 2], ['tanh', 'softmax'])

        db.save_network_to_db(net, "test_network", trained=False)
        age_network(db.db_path, "test_network", '-3 days')

        assert db.delete_old_networks_from_db(days=2) == 1
        assert db.load_network_from_db("test_network") is None
