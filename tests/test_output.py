import io
import json

import rpk8s.output
from rpk8s.models import GeneratedResource


def get_resources():
    return [
        GeneratedResource(
            resourceType="namespace",
            name="chirper",
            payload={"kind": "Namespace", "metadata": {"name": "chirper"}},
        ),
        GeneratedResource(
            resourceType="deployment",
            name="myapp-v1.2.3",
            payload={"kind": "Deployment", "metadata": {"name": "myapp-v1.2.3"}},
        ),
    ]


class TestOutput:
    def test_file_name(self):
        res = get_resources()[1]
        assert rpk8s.output.file_name(res) == "deployment-myapp-v1.2.3.json"

    def test_save_to_file(self, tmp_path):
        dst = tmp_path / "nested" / "folder"
        resources = get_resources()

        # Must create the folder and write one file per resource.
        assert not rpk8s.output.save_to_file(dst, resources)
        names = sorted(_.name for _ in dst.iterdir())
        assert names == ["deployment-myapp-v1.2.3.json", "namespace-chirper.json"]

        data = json.loads((dst / "namespace-chirper.json").read_text())
        assert data == resources[0].payload

        # Must overwrite existing files.
        (dst / "namespace-chirper.json").write_text("stale")
        assert not rpk8s.output.save_to_file(dst, resources)
        data = json.loads((dst / "namespace-chirper.json").read_text())
        assert data == resources[0].payload

    def test_save_to_file_error(self, tmp_path):
        """Must return an error if the destination is not a folder."""
        dst = tmp_path / "file"
        dst.write_text("")
        assert rpk8s.output.save_to_file(dst, get_resources())

    def test_pipe_to_stream(self):
        out = io.StringIO()
        resources = get_resources()
        rpk8s.output.pipe_to_stream(out, resources)

        # Every resource must be preceded by a document marker.
        docs = out.getvalue().split("---\n")
        assert docs[0] == ""
        assert [json.loads(_) for _ in docs[1:]] == [_.payload for _ in resources]

    def test_pipe_nothing(self):
        out = io.StringIO()
        rpk8s.output.pipe_to_stream(out, [])
        assert out.getvalue() == ""
