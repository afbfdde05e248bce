import copy
import unittest

from lightdesk_api import SCHEMA_KIND_EFFECT
from lightdesk_editor import ConfigEditorController
from lightdesk_errors import FetchError, SaveError
from lightdesk_schema import normalize_action_schemas, normalize_effect_schemas

CONFIG = {
    "Chains": [
        {
            "ID": "stage",
            "Priority": 0,
            "TickRate": 100,
            "NumLamps": 4,
            "Output": {"Type": "artnet", "Args": {"ip": "10.0.0.2"}, "ChannelMapping": "RGB", "NumChannelsPerLamp": 3},
            "Effects": [{"ID": "pulse", "Type": "blink", "Enabled": True, "Group": "", "Args": {"divider": 2}}],
        }
    ],
    "events": {"drop": [{"type": "set_bpm", "params": {"bpm": 140.0}}]},
}


class FakeEditorClient:
    def __init__(self):
        self.config = copy.deepcopy(CONFIG)
        self.fail_fetch = None
        self.fail_save = None
        self.saved = []

    def load_schemas(self, kind):
        if self.fail_fetch is not None:
            raise self.fail_fetch
        if kind == SCHEMA_KIND_EFFECT:
            return normalize_effect_schemas(
                {
                    "blink": {"args": {"divider": {"type": "int", "default": 1, "min": 1}}},
                    "rainbow": {"args": {}},
                }
            )
        return normalize_action_schemas(
            {"set_bpm": {"Parameters": [{"internal_name": "bpm", "data_type": "float64", "default_value": 120.0}]}}
        )

    def get_config(self):
        return copy.deepcopy(self.config)

    def save_config(self, payload):
        if self.fail_save is not None:
            raise self.fail_save
        self.saved.append(copy.deepcopy(payload))
        self.config = copy.deepcopy(payload)
        return "Configuration saved."


class RecordingView:
    def __init__(self):
        self.trees = []
        self.patches = []
        self.replaced = []
        self.statuses = []
        self.errors = []

    def show_tree(self, tree):
        self.trees.append(tree)

    def apply_patch(self, tree, chains, events):
        self.patches.append((tree, chains, events))

    def replace_param_block(self, section):
        self.replaced.append(section.key)

    def show_status(self, text):
        self.statuses.append(text)

    def show_error(self, text, *, fatal=False):
        self.errors.append((text, fatal))


def _loaded():
    client = FakeEditorClient()
    view = RecordingView()
    controller = ConfigEditorController(client, view)
    assert controller.init()
    return client, view, controller


class InitTests(unittest.TestCase):
    def test_init_renders_tree_from_schemas_and_config(self):
        _, view, controller = _loaded()
        self.assertTrue(controller.ready)
        self.assertFalse(controller.dirty)
        tree = view.trees[-1]
        self.assertEqual([section.key for section in tree.chains], ["chain:stage"])
        self.assertEqual([section.key for section in tree.events], ["event:drop"])
        self.assertEqual(view.statuses[-1], "Loaded 1 chains and 1 events.")

    def test_fetch_failure_is_fatal_and_leaves_no_editor(self):
        client = FakeEditorClient()
        client.fail_fetch = FetchError("offline", url="http://test/api/effects/schema")
        view = RecordingView()
        controller = ConfigEditorController(client, view)
        with self.assertLogs("lightdesk_editor", level="ERROR"):
            self.assertFalse(controller.init())
        self.assertFalse(controller.ready)
        self.assertIsNone(controller.model)
        text, fatal = view.errors[-1]
        self.assertTrue(fatal)
        self.assertIn("offline", text)

    def test_structural_edit_before_load_is_reported(self):
        view = RecordingView()
        controller = ConfigEditorController(FakeEditorClient(), view)
        self.assertIsNone(controller.add_chain())
        self.assertEqual(view.errors, [("Editor is not loaded.", False)])


class SaveTests(unittest.TestCase):
    def test_save_posts_model_and_clears_dirty(self):
        client, view, controller = _loaded()
        controller.add_chain()
        self.assertTrue(controller.dirty)
        self.assertTrue(controller.save())
        self.assertFalse(controller.dirty)
        self.assertEqual([chain["ID"] for chain in client.saved[0]["Chains"]], ["stage", "newChain2"])
        self.assertEqual(view.statuses[-1], "Configuration saved.")

    def test_save_failure_keeps_model_and_allows_retry(self):
        client, view, controller = _loaded()
        controller.add_event()
        client.fail_save = SaveError("bad config", url="http://test/api/config", status_code=400)
        with self.assertLogs("lightdesk_editor", level="WARNING"):
            self.assertFalse(controller.save())
        self.assertTrue(controller.dirty)
        self.assertIn("newEvent2", controller.model.events)
        self.assertIn("bad config", view.errors[-1][0])

        client.fail_save = None
        self.assertTrue(controller.save())
        self.assertIn("newEvent2", client.saved[-1]["events"])

    def test_submit_posts_without_touching_controller_state(self):
        client, view, controller = _loaded()
        controller.add_chain()
        payload, revision = controller.snapshot_for_save()
        message = controller.submit(payload)
        self.assertEqual(client.saved, [payload])
        self.assertTrue(controller.dirty)
        self.assertNotIn(message, view.statuses)

        controller.save_succeeded(revision, message)
        self.assertFalse(controller.dirty)
        self.assertEqual(view.statuses[-1], message)

    def test_edit_during_submit_stays_dirty(self):
        _, _, controller = _loaded()
        controller.add_chain()
        payload, revision = controller.snapshot_for_save()
        message = controller.submit(payload)
        controller.add_event()
        controller.save_succeeded(revision, message)
        self.assertTrue(controller.dirty)

    def test_unchanged_model_saves_what_was_loaded(self):
        client, _, controller = _loaded()
        controller.save()
        self.assertEqual(client.saved[0], CONFIG)


class ReloadTests(unittest.TestCase):
    def test_reload_discards_unsaved_edits(self):
        _, view, controller = _loaded()
        controller.add_chain()
        with self.assertLogs("lightdesk_editor", level="INFO"):
            self.assertTrue(controller.reload())
        self.assertEqual(len(controller.model.chains), 1)
        self.assertFalse(controller.dirty)
        self.assertIn("Reloading; unsaved edits discarded.", view.statuses)

    def test_reload_picks_up_backend_changes(self):
        client, view, controller = _loaded()
        client.config["Chains"][0]["NumLamps"] = 12
        controller.reload()
        self.assertEqual(controller.model.chain("stage").num_lamps, 12)
        self.assertEqual(len(view.trees), 2)


class EditWiringTests(unittest.TestCase):
    def test_add_effect_patches_only_owning_chain(self):
        _, view, controller = _loaded()
        effect = controller.add_effect("stage")
        self.assertEqual(effect.id, "newEffect2")
        tree, chains, events = view.patches[-1]
        self.assertEqual(chains.changed, ["chain:stage"])
        self.assertTrue(events.is_empty)
        self.assertEqual(len(tree.chain("chain:stage").effects), 2)

    def test_unchanged_sections_keep_their_objects(self):
        _, view, controller = _loaded()
        event_section = controller.tree.event("event:drop")
        controller.add_chain()
        self.assertIs(controller.tree.event("event:drop"), event_section)

    def test_param_commit_resigns_section_without_rebuild(self):
        _, view, controller = _loaded()
        section = controller.tree.chain("chain:stage").effects[0]
        section.params.field_named("divider").raw = "6"
        self.assertEqual(controller.commit_param(section, "divider"), "")
        self.assertEqual(controller.model.effect("stage", "pulse").args["divider"], 6)
        controller.add_event()
        _, chains, _ = view.patches[-1]
        self.assertEqual(chains.changed, [])

    def test_malformed_commit_is_rejected_without_mutation(self):
        _, view, controller = _loaded()
        section = controller.tree.chain("chain:stage").effects[0]
        section.params.field_named("divider").raw = "lots"
        result = controller.commit_param(section, "divider")
        self.assertTrue(result.startswith("invalid:"))
        self.assertFalse(controller.dirty)
        self.assertTrue(view.statuses[-1].startswith("Rejected:"))

    def test_bounds_warning_is_returned(self):
        _, _, controller = _loaded()
        section = controller.tree.chain("chain:stage").effects[0]
        section.params.field_named("divider").raw = "0"
        self.assertEqual(controller.commit_param(section, "divider"), "below minimum 1.0")
        self.assertEqual(controller.model.effect("stage", "pulse").args["divider"], 0)

    def test_chain_id_edit_rekeys_tree(self):
        _, view, controller = _loaded()
        section = controller.tree.chain("chain:stage")
        section.fields[0].raw = "front"
        controller.commit_chain_field(section, "id")
        _, chains, _ = view.patches[-1]
        self.assertEqual(chains.removed, ["chain:stage"])
        self.assertEqual(chains.added, ["chain:front"])

    def test_event_rename_collision_is_reported(self):
        _, view, controller = _loaded()
        controller.add_event()
        section = controller.tree.event("event:newEvent2")
        section.name_field.raw = "drop"
        result = controller.commit_event_name(section)
        self.assertTrue(result.startswith("invalid:"))
        self.assertEqual(list(controller.model.events), ["drop", "newEvent2"])

    def test_change_type_replaces_param_block(self):
        _, view, controller = _loaded()
        section = controller.tree.chain("chain:stage").effects[0]
        controller.change_type(section, "rainbow")
        self.assertEqual(view.replaced, [section.key])
        self.assertEqual(controller.model.effect("stage", "pulse").args, {})
        self.assertEqual(section.params.fields, [])

    def test_change_type_to_same_type_is_ignored(self):
        _, view, controller = _loaded()
        section = controller.tree.chain("chain:stage").effects[0]
        controller.change_type(section, "blink")
        self.assertEqual(view.replaced, [])
        self.assertFalse(controller.dirty)

    def test_remove_missing_action_is_reported(self):
        _, view, controller = _loaded()
        self.assertIsNone(controller.remove_action("drop", 5))
        self.assertIn("not found", view.errors[-1][0])

    def test_remove_action_rebuilds_event(self):
        _, view, controller = _loaded()
        controller.add_action("drop")
        controller.remove_action("drop", 0)
        tree, _, events = view.patches[-1]
        self.assertEqual(events.changed, ["event:drop"])
        self.assertEqual(len(tree.event("event:drop").actions), 1)
        self.assertEqual(controller.model.action("drop", 0).params, {})


if __name__ == "__main__":
    unittest.main()
